"""
Portico - HTTP surface for Narthex.

Run with `narthex-serve` or `uvicorn portico.run:app`.
"""
