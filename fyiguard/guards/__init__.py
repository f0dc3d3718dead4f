"""Guard checks run by the verdict engine, in evaluation order."""
