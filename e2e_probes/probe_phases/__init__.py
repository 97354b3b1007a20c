"""Runnable probes, one module per verification flow."""
