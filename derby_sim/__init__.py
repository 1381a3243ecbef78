"""Monte Carlo race simulation of a single competitor over a fixed course."""
