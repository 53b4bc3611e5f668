"""Story playback backend: grouping, sequencing and the viewer API."""
