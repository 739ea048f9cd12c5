"""HTTP API for driving a reader session (FastAPI).

HOW: app.py builds the app around one ReaderSession; jobs.py tracks
background preprocess jobs; models.py holds the request/response schemas.
"""
