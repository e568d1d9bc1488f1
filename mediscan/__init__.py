"""
MediScan AI - Medical Image Scan Analysis Service

Lets an authenticated user upload a medical image, forwards it to a hosted
multimodal model for an informational analysis, and keeps a scan history.

IMPORTANT: This is NOT a diagnosis tool. It must NEVER replace a doctor.
"""

__version__ = "1.0.0"
__author__ = "MediScan AI Team"
