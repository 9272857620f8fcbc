"""reelcompose — property reel rendering.

Turn a property listing (photos, prices, brand) into a vertical video
reel, or join several clips into one reel with overlays. Encoding falls
back from live capture to frame-sequence export, and from engine
concatenation to real-time recapture.
"""
