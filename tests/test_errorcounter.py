from scannode.errorcounter import ErrorCounter


def test_error_counter():
    counter = ErrorCounter(2, lambda err: err is not None)
    assert counter.too_many_errs(Exception("error 1")) is False
    assert counter.too_many_errs(None) is False
    assert counter.too_many_errs(Exception("error 1")) is False
    assert counter.too_many_errs(Exception("error 2")) is True


def test_non_critical_errors_reset():
    counter = ErrorCounter(2, lambda err: isinstance(err, TimeoutError))
    assert counter.too_many_errs(TimeoutError()) is False
    assert counter.too_many_errs(ValueError()) is False
    assert counter.too_many_errs(TimeoutError()) is False
    assert counter.too_many_errs(TimeoutError()) is True