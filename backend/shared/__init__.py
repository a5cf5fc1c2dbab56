"""Code shared by the API process and maintenance scripts."""
