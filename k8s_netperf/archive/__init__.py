"""Result output: console tables, CSV files and indexed documents."""
