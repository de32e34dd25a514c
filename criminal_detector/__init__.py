"""Classical (non-learned) face matching against a small criminal record gallery."""
