"""Analytics events emitted by the personalization pipeline."""
