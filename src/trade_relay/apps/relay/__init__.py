"""HTTP relay between a browser page and the Deriv trading API.

Authenticate an API token, buy a contract on the caller's behalf and follow
it until Deriv reports it sold, exposing the final result for polling.
"""
