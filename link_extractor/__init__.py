"""Link Regex Extractor: resumable fetch-and-match jobs over URL batches."""

__version__ = "0.1.0"

__all__ = ["__version__"]
