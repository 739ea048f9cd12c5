"""Core text, timing, and prefetch modules.

WHY: The core package holds the pure, I/O-free heart of the reader:
the data model, the tokenizer/segmenter, the word-timing estimator, and
the batch prefetch scheduler. Playback and the front ends build on these.

HOW: ir.py defines the data structures, segmenter.py turns text into a
Document, timing.py estimates word intervals inside a clip, prefetch.py
drives a fetch coroutine over all paragraphs with a bounded worker pool.

RULES:
- Nothing in core touches audio devices or speech engines
- The word pattern in segmenter.py is the single definition of a "word"
"""
