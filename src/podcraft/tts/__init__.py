"""
Audio Generation Pipeline Components.

    - chunker.py: Script splitting into TTS-sized chunks
    - pipeline.py: Bounded-parallel synthesis with retry and reassembly
    - cache.py: In-memory LRU cache with TTL for chunk audio
    - concurrency.py: Process-wide limit on generation jobs
"""
