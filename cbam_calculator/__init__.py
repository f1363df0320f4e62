"""CBAM embedded-emissions calculator core."""
