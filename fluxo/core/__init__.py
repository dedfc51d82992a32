"""Core domain logic: chunking, locking primitives and the exception hierarchy."""
