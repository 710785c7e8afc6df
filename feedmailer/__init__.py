"""feedmailer: check feeds and scraped pages, mail what is new."""

__version__ = "0.1.0"
