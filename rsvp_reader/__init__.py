"""RSVP Reader — one word at a time, in step with the voice reading it.

WHY: Rapid serial visual presentation lets a reader take in an article
without moving their eyes, and pairing it with speech keeps the pace
honest. The hard part is keeping the displayed word locked to the audio
through pause, seek and resume, with either a remote synthesized voice
or a local system voice.

HOW: Four stages: segment the text (core.segmenter), prepare audio
(api client + core.prefetch for the remote voice), synchronize playback
(playback.engine with a timing source per voice), and present (CLI,
HTTP API, exporters).

RULES:
- Words are addressed only by their global index in the segmented document
- The playback engine is the only writer of cursor state
"""

__version__ = "0.1.0"
