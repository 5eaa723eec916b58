"""
Speech Pipeline Components.

    - segmenter.py: Word-boundary text segmentation
    - synthesizer.py: Synthesis backend base class and factory
    - polly.py: Amazon Polly backend
    - staging.py: Request-scoped artifact storage
    - merger.py: ffmpeg and byte-concat merge backends
"""
