"""Services for the media proxy."""
