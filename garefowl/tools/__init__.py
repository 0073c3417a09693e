"""Tool descriptors and the executors behind them."""
