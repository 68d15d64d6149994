"""Build, run locally, and deploy serverless actions and their frontend."""

__version__ = "0.1.0"
