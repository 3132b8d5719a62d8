"""
pH Speciation Tools

Species model, balance residual and pH solver for weak acid/base mixtures,
plus the schema, reporting and console layers around them.
"""

# Modules are imported directly by callers to keep this package light
# (plotting pulls in matplotlib only when used)

__all__ = []
