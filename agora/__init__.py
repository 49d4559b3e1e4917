"""
Agora

A marketplace engine for unique and multi-unit assets:
- Fixed-price listings with partial fills
- Timed auctions with escrowed bids
- Escrowed offers with partial acceptance
- Atomic settlement with fee, royalty and dev-cut splits
"""
