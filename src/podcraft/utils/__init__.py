"""
Utility Modules for PodCraft.

    - audio.py: PCM/WAV conversion and inline image decoding
    - timeit.py: Performance measurement
"""
