"""Quality-post bonus request workflow."""
