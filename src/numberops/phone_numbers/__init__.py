"""
Phone number lifecycle: search, purchase, release and voice-AI sync.
"""
