"""Recipe costing core: nested recipe costs, unit/currency conversion, prep sheets."""

__version__ = "0.1.0"
