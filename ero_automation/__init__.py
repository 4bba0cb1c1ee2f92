"""Release order automation: drives release orders through a depot web UI."""
