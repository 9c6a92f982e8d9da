"""Core services: LLM access, windowing, dates, rate limiting and the request pipeline."""
