"""
Task ingestion, normalization, editing and export pipeline.
"""
