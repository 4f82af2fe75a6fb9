import numpy


def stop_early(loss_hist, hist_len=5, tol=0.0, dec=True):
    """
    Returns True when the linear trend over the `hist_len` most recent
    components of `loss_hist` is greater (or lesser if dec=False) than `tol`.
    """
    if len(loss_hist) < hist_len:
        return False

    x = numpy.c_[numpy.ones(hist_len), numpy.arange(hist_len)+1]
    y = numpy.array(loss_hist[-hist_len:], dtype=float)

    if not numpy.isfinite(y).all():
        return False

    # The slope of the best fit line.
    slope = numpy.linalg.lstsq(x, y, rcond=None)[0][1]

    return bool(slope >= tol) if dec else bool(slope <= tol)


class EarlyStopping(object):
    """ Stop when the monitored value (lower is better) has not improved by
    more than `min_delta` over the best value so far for `patience`
    consecutive epochs
    """

    def __init__(self, patience=10, min_delta=0.0):
        if not isinstance(patience, int) or patience < 1:
            raise ValueError("`patience` must be a positive integer")
        if min_delta < 0:
            raise ValueError("`min_delta` must be non-negative")

        self.patience = patience
        self.min_delta = min_delta
        self.reset()

    def __repr__(self):
        return "<EarlyStopping patience=%d, min_delta=%g>" % (
            self.patience, self.min_delta)

    def reset(self):
        self.best = numpy.inf
        self.n_bad_epochs = 0
        self.should_stop = False

    def update(self, value):
        """ Record the value of the latest epoch. Returns True when training
        should stop.
        """
        if value < self.best - self.min_delta:
            self.best = value
            self.n_bad_epochs = 0
        else:
            self.n_bad_epochs += 1

        self.should_stop = self.n_bad_epochs >= self.patience
        return self.should_stop


class TrendEarlyStopping(object):
    """ Stop when the least squares slope of the last `history_len` values is
    not below `-tol`, i.e., the monitored loss no longer trends downward
    """

    def __init__(self, history_len=5, tol=0.0):
        if not isinstance(history_len, int) or history_len < 2:
            raise ValueError("`history_len` must be an integer >= 2")

        self.history_len = history_len
        self.tol = tol
        self.reset()

    def __repr__(self):
        return "<TrendEarlyStopping history_len=%d, tol=%g>" % (
            self.history_len, self.tol)

    def reset(self):
        self.values = []
        self.should_stop = False

    def update(self, value):
        self.values.append(value)
        self.should_stop = stop_early(
            self.values, hist_len=self.history_len, tol=-self.tol)
        return self.should_stop


EARLY_STOPPING = {
    'patience': EarlyStopping,
    'trend': TrendEarlyStopping,
}


def make_early_stopping(kind, **kwargs):
    try:
        early_stopping_class = EARLY_STOPPING[str(kind).lower()]
    except KeyError:
        msg = "Unknown early stopping rule `{}`; expected one of {}"
        raise ValueError(msg.format(kind, sorted(EARLY_STOPPING)))

    return early_stopping_class(**kwargs)
