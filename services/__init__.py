"""
Services package for the fatigue screening service.

This package contains clients for external services:
- Vision model (OpenAI / Azure OpenAI): second-opinion analysis of captured frames
"""
