"""Browser-driven verification probes for the onboarding and orchestration app."""

__version__ = "0.1.0"
