"""Venue dashboard service: sheet ingestion and dashboard summary aggregation."""
