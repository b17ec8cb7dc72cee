"""Core building blocks shared by every reststub layer."""
