"""DataSoup — data.gov.il change tracker and Telegram notifier."""

__version__ = "0.1.0"
