"""Shared service-level constants."""

SERVICE_NAME = "receiver"
