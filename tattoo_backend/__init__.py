"""
Tattoo data collector service.

Artists upload a photo of a finished tattoo with its price, time taken and
tags. This package provides the FastAPI application, the image and record
stores behind it, and the diagnostics that cross-check the two.
"""
