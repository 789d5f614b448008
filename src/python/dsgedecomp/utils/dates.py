import pandas as pd


def quarter_to_period(q):
    """
    Converts 'YYYYqX', 'YYYY-qX', a date string or a timestamp to a quarterly Period.
    """
    if isinstance(q, pd.Period):
        return q.asfreq("Q")
    if isinstance(q, str):
        q_str = q.upper().replace("-Q", "Q")
        if "Q" in q_str:
            year, quarter = q_str.split("Q")
            return pd.Period(year=int(year), quarter=int(quarter), freq="Q")
    return pd.Period(pd.Timestamp(q), freq="Q")


def quarter_to_date(q):
    """
    End-of-quarter timestamp for a quarter given in any form quarter_to_period accepts.
    """
    return quarter_to_period(q).end_time.normalize()


def subtract_quarters(q1, q2):
    """
    Number of quarters from q2 to q1 (negative if q1 precedes q2).
    """
    return (quarter_to_period(q1) - quarter_to_period(q2)).n


def quarter_range(start, periods):
    return pd.period_range(quarter_to_period(start), periods=periods, freq="Q")
