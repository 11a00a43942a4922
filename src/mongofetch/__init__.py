"""Mongofetch - MongoDB release downloader and local artifact catalog."""
