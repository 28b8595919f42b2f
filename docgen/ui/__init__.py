"""Streamlit panels for the console header."""
