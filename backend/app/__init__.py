"""Listing analytics service: event aggregation, daily statistics and reports."""
