"""Fluxo Alfa backend: subscription billing and knowledge-base ingestion."""
