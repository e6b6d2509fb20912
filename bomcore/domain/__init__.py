"""
Domain layer: entities, aggregates, value objects and pure BOM algorithms.
"""
