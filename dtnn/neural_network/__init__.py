"""
Fully connected layers, losses and optimizers for a network with a
shared encoder and two heads:

    Input (R^n) => Encoder (R^h) => Classification head (probability)
                                 => Regression head (severity)

Gradients of the cross-entropy and squared error losses with respect to
every parameter are implemented by hand.
"""
