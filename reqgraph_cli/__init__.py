"""ReqGraph: reverse-dependency analysis for CommonJS codebases."""

__version__ = "0.3.0"
