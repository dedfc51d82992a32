"""External system boundaries: database, payment gateway, embeddings."""
