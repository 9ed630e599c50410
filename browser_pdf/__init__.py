"""
Browser PDF Service - renders web pages and HTML fragments to PDF.

Drives a remotely-launched headless Chromium over CDP with Playwright and
keeps one browser warm per service instance for a short idle window.
"""

__version__ = "0.1.0"
