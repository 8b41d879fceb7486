"""DocuMCP: validate documentation code examples by simulating their execution."""

__version__ = "0.1.0"
