"""Built-in CLI commands (``login``, ``list``, ``token``)."""
