import datetime
import pickle
import numpy as np
import pytest
import scipy.io
from visdecision.session import Session, normalize_feedback, feedback_label
from visdecision.io import (
    load_session,
    load_sessions,
    load_sessions_npy,
    save_session,
    session_from_record,
    session_from_steinmetz,
    session_summary,
    summarize_sessions,
)


def make_record(n_trials=3, n_bins=5, seed=0, mouse='Cori', date='2016-12-14'):
    rng = np.random.RandomState(seed)
    times = np.linspace(-0.2, 0.2, n_bins)
    return {
        'mouse_name': mouse,
        'date_exp': date,
        'feedback_type': [1, -1, None][:n_trials] + [1] * max(0, n_trials - 3),
        'contrast_left': [0.0, 0.5, 1.0][:n_trials] + [0.25] * max(0, n_trials - 3),
        'contrast_right': [0.25] * n_trials,
        'spks': [rng.poisson(1.0, size=(4 + i, n_bins)) for i in range(n_trials)],
        'time': [times.copy() for _ in range(n_trials)],
    }


def test_normalize_feedback():
    assert normalize_feedback(1) == 1
    assert normalize_feedback(-1) == -1
    assert normalize_feedback(None) == -1
    assert normalize_feedback(np.nan) == -1
    assert feedback_label(1) == 1.0
    assert feedback_label(-1) == 0.0
    assert feedback_label(None) == 0.0
    with pytest.raises(ValueError):
        normalize_feedback(0)
    with pytest.raises(ValueError):
        normalize_feedback('hit')


def test_session_from_record():
    session = session_from_record(make_record(), session_name='session1')
    assert session.subject == 'Cori'
    assert session.date == datetime.date(2016, 12, 14)
    assert session.session_name == 'session1'
    assert len(session.trials) == 3
    assert [t.feedback for t in session.trials] == [1, -1, None]
    assert [t.n_neurons for t in session.trials] == [4, 5, 6]
    assert session.trials[1].contrast_left == 0.5
    assert session.trials[0].n_time_bins == 5


def test_session_from_record_attributes():
    class Record:
        pass

    rec = Record()
    for k, v in make_record(n_trials=2).items():
        setattr(rec, k, v)
    session = session_from_record(rec)
    assert len(session.trials) == 2


def test_session_from_record_length_mismatch():
    rec = make_record()
    rec['contrast_right'] = [0.0, 0.0]
    with pytest.raises(ValueError):
        session_from_record(rec)
    rec = make_record()
    del rec['spks']
    with pytest.raises(ValueError):
        session_from_record(rec)


def test_load_pickled_record(tmp_path):
    path = tmp_path / 'session2.pkl'
    with path.open('wb') as f:
        pickle.dump(make_record(n_trials=4), f)
    session = load_session(str(path))
    assert session.session_name == 'session2'
    assert len(session.trials) == 4


def test_save_and_load_session(tmp_path):
    session = session_from_record(make_record())
    path = tmp_path / 'out' / 'session.pkl'
    save_session(session, str(path))
    loaded = load_session(str(path))
    assert isinstance(loaded, Session)
    assert loaded.subject == session.subject
    assert np.array_equal(loaded.trials[2].spike_matrix, session.trials[2].spike_matrix)


def test_load_mat_record(tmp_path):
    rec = make_record(n_trials=3)
    spks = np.empty(3, dtype=object)
    times = np.empty(3, dtype=object)
    for i in range(3):
        spks[i] = rec['spks'][i].astype(float)
        times[i] = rec['time'][i]
    path = tmp_path / 'session3.mat'
    scipy.io.savemat(str(path), {
        'mouse_name': 'Forssmann',
        'date_exp': '2017-11-01',
        'feedback_type': np.array([1.0, -1.0, np.nan]),
        'contrast_left': np.array(rec['contrast_left']),
        'contrast_right': np.array(rec['contrast_right']),
        'spks': spks,
        'time': times,
    })
    session = load_session(str(path))
    assert session.subject == 'Forssmann'
    assert session.date == datetime.date(2017, 11, 1)
    assert [t.feedback for t in session.trials] == [1, -1, None]
    assert [t.spike_matrix.shape for t in session.trials] == [(4, 5), (5, 5), (6, 5)]
    np.testing.assert_allclose(session.trials[0].time_bins, rec['time'][0])


def test_load_mat_struct_record(tmp_path):
    rec = make_record(n_trials=2)
    spks = np.empty(2, dtype=object)
    times = np.empty(2, dtype=object)
    for i in range(2):
        spks[i] = rec["spks"][i].astype(float)
        times[i] = rec["time"][i]
    path = tmp_path / "session4.mat"
    scipy.io.savemat(str(path), {"session": {
        "mouse_name": "Hench",
        "date_exp": "2017-06-15",
        "feedback_type": np.array([1.0, -1.0]),
        "contrast_left": np.array([0.0, 0.5]),
        "contrast_right": np.array([1.0, 0.0]),
        "spks": spks,
        "time": times,
    }})
    session = load_session(str(path))
    assert session.subject == "Hench"
    assert [t.feedback for t in session.trials] == [1, -1]
    assert [t.spike_matrix.shape for t in session.trials] == [(4, 5), (5, 5)]


def test_load_session_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_session(str(tmp_path / 'missing.pkl'))
    bad = tmp_path / 'session.csv'
    bad.write_text('a,b\n')
    with pytest.raises(ValueError):
        load_session(str(bad))


def test_load_sessions_keeps_order(tmp_path):
    paths = []
    for i, mouse in enumerate(['Cori', 'Forssmann', 'Hench']):
        p = tmp_path / f'session{i + 1}.pkl'
        with p.open('wb') as f:
            pickle.dump(make_record(mouse=mouse, seed=i), f)
        paths.append(str(p))
    sessions = load_sessions(paths)
    assert [s.subject for s in sessions] == ['Cori', 'Forssmann', 'Hench']


def test_steinmetz_layout(tmp_path):
    rng = np.random.RandomState(0)
    rec = {
        'mouse_name': 'Lederberg',
        'date_exp': '2017-12-05',
        'spks': rng.poisson(0.5, size=(7, 4, 10)),
        'feedback_type': np.array([1, -1, 1, 1]),
        'contrast_left': np.array([0, 0.25, 0.5, 1.0]),
        'contrast_right': np.array([0, 0, 0, 0.5]),
        'brain_area': np.array(['VISp'] * 7),
    }
    session = session_from_steinmetz(rec)
    assert len(session.trials) == 4
    assert session.trials[1].spike_matrix.shape == (7, 10)
    np.testing.assert_allclose(session.trials[1].spike_matrix, rec['spks'][:, 1, :])
    np.testing.assert_allclose(session.trials[0].time_bins[:2], [0.005, 0.015])
    assert session.brain_area == ['VISp'] * 7

    path = tmp_path / 'steinmetz_part1.npy'
    np.save(str(path), np.array([rec, rec], dtype=object), allow_pickle=True)
    sessions = load_sessions_npy(str(path))
    assert len(sessions) == 2
    assert sessions[1].session_name == 'steinmetz_part1_2'


def test_session_summary():
    session = session_from_record(make_record())
    summary = session_summary(session)
    assert summary['subject'] == 'Cori'
    assert summary['date'] == '2016-12-14'
    assert summary['n_trials'] == 3
    assert summary['min_neurons'] == 4
    assert summary['max_neurons'] == 6
    assert summary['n_time_bins'] == 5
    assert summary['success_rate'] == pytest.approx(1 / 3)
    assert summary['n_misses'] == 1

    df = summarize_sessions([session, session_from_record(make_record(mouse='Hench'))])
    assert list(df.index) == [1, 2]
    assert list(df['subject']) == ['Cori', 'Hench']
