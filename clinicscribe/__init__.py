"""
ClinicScribe - Consultation Recording and Clinical Documentation Service

A FastAPI-based service that records or accepts consultation audio,
transcribes it with speaker diarization, drafts a summary with diagnosis and
prescription suggestions and stores the reviewed clinical document.
"""

__version__ = "1.0.0"
