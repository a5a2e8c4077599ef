"""ThinkFolio: document ingestion and retrieval-augmented chat over uploaded papers."""

__version__ = "0.1.0"
