"""Program model boundary between a compiler frontend and the analysis core."""
