"""
SketchFlow
Service layer. Business rules and commits live here; blueprints only
translate HTTP to service calls.
"""
