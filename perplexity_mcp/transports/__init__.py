"""Alternative transports that attach the protocol core directly."""
