"""Agenda ingestion pipeline for Brazilian public event listings."""

__version__ = "0.1.0"
