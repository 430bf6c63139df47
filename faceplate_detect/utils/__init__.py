"""Image and file helpers shared by the CLI and the detection core."""
