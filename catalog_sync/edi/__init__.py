"""EDI ingestion: periodic CSV drops turned into cache mutations, once per file."""
