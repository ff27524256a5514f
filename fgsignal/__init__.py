# Fear & Greed Signal Engine
#
# Decision core:
# - indicators: SMA 20/50/100/200 + Bollinger Bands (20, 2σ) from daily closes
# - evaluator: stateless BUY / SELL / HOLD state machine with explainable reasoning
# - store: per-user open positions and append-only execution ledger (SQLite or Supabase)
# - frequency: one confirmed execution per user per calendar month
# - fallback: safe HOLD signal when price or sentiment data is unavailable
#
# Collaborators:
# - market_data: Yahoo Finance price history (yfinance)
# - sentiment: CNN Fear & Greed Index with a short TTL cache
# - transport: shared timeout + exponential backoff retry for upstream calls
# - service: evaluate / confirm_execution facade used by jobs and command handlers

__version__ = "1.0.0"
