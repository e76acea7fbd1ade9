"""MIDI note annotation library.

This package annotates a parsed sequence of MIDI notes for notation export
and visualization. It classifies ornaments, snaps notes to competing rhythm
grids while recording why, and splits the stream into voices.

The main processing pipeline consists of:
1. Ornament detection (grace notes, mordents, turns and trills)
2. Shadow quantization against a Primary and optional Secondary grid
3. Voice separation with orphan handling

Example:
    Basic usage through the pipeline API:

    >>> from midi_annotator.pipeline import process_complete_pipeline
    >>> from midi_annotator.models import Note, ProcessingParameters
    >>>
    >>> notes = [Note(pitch=60, onset=0, duration=480), Note(pitch=64, onset=480, duration=480)]
    >>> params = ProcessingParameters()
    >>> result = process_complete_pipeline(notes, params)
"""
