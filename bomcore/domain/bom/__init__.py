"""
BOM Domain - Bill of Materials.

This domain handles the hierarchical structure of products:
- A BOM revision lists the components needed to build one product
- Items form a tree through parent item references
- A component may itself be a product with its own BOM

Everything here is synchronous and free of I/O.
"""
