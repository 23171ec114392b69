import matplotlib

# Tests never open a display
matplotlib.use("Agg")
