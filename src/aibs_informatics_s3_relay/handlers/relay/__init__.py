"""S3 object relay: stage newly created objects locally, then upload them to the
destination bucket."""
