"""Tests for the incremental manifold repair session."""

import numpy as np
import pytest

from manifix.flags import FaceFlag, VertexFlag
from manifix.guard import ManifoldGuard
from manifix.hds import Mesh


SQUARE = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 0.0]]

TETRA_POINTS = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
                [0.0, 0.0, 1.0]]
TETRA_FACES = [[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]]


def start(points, **kwargs):
    """Open a quiet session on an empty mesh and add the given points."""
    kwargs.setdefault('quiet', True)
    session = ManifoldGuard(Mesh(), **kwargs)
    session.begin()

    for p in points:
        session.add_vertex(p)

    return session


def indices(mesh):
    return [[int(v) for v in f] for f in mesh]


def registry(session):
    return {int(v): [int(w) for w in copies]
            for v, copies in session.duplicates.items()}


def assert_manifold_edges(face):
    """Every halfedge of a committed face borders exactly that face."""
    for h in face._hiter():
        assert h.face is face
        assert h.pair is not None
        assert h.pair.face is not face


def test_two_triangles_share_edge():
    session = start(SQUARE)

    f0 = session.add_face([0, 1, 2])
    f1 = session.add_face([2, 1, 3])

    assert f0 is not None and f1 is not None
    assert session.num_non_manifold_edges == 0
    assert session.duplicates == {}
    assert indices(session.mesh) == [[0, 1, 2], [2, 1, 3]]
    assert session.mesh.size == (4, 5, 2)
    assert not f1.flags & FaceFlag.REPAIRED

    assert session.finish() is None
    assert session.report is None


def test_face_with_two_vertices_is_rejected():
    session = start(SQUARE)

    assert session.add_face([0, 1]) is None
    assert session.add_face([]) is None

    assert session.num_faces_less_three_vertices == 2
    assert session.num_faces_duplicated_vertices == 0
    assert session.mesh.size == (4, 0, 0)


def test_face_with_repeated_vertex_is_rejected():
    session = start(SQUARE)

    assert session.add_face([0, 1, 0]) is None
    assert session.add_face([3, 1, 2, 1]) is None

    assert session.num_faces_duplicated_vertices == 2
    assert session.num_faces_less_three_vertices == 0
    assert session.mesh.size == (4, 0, 0)
    assert session.mesh.halfedges == {}


def test_rejection_does_not_touch_mesh():
    session = start(SQUARE)
    session.add_face([0, 1, 2])
    before = (session.mesh.size, dict(session.mesh.halfedges))

    session.add_face([1, 2])
    session.add_face([2, 2, 3])

    assert (session.mesh.size, session.mesh.halfedges) == before


def test_out_of_range_index_raises():
    session = start(SQUARE)

    with pytest.raises(IndexError):
        session.add_face([0, 1, 4])

    with pytest.raises(IndexError):
        session.add_face([-1, 0, 1])


def test_faces_accept_vertex_objects():
    session = start(SQUARE)
    v = session.mesh.vertices

    f = session.add_face([v[0], v[1], v[2]])

    assert [int(w) for w in f] == [0, 1, 2]


def test_same_directed_edge_three_times():
    points = SQUARE + [[0.5, -1.0, 0.0]]
    session = start(points)

    faces = [session.add_face([0, 1, k]) for k in (2, 3, 4)]

    assert all(f is not None for f in faces)
    assert session.num_non_manifold_edges == 2

    # Second face: neither endpoint has a closed fan, both get copied.
    # Third face: the copy of vertex 0 is reused.
    assert registry(session) == {0: [5], 1: [6]}
    assert indices(session.mesh) == [[0, 1, 2], [5, 6, 3], [5, 1, 4]]

    for f in faces:
        assert_manifold_edges(f)

    assert faces[1].flags & FaceFlag.REPAIRED
    assert faces[2].flags & FaceFlag.REPAIRED
    assert not faces[0].flags

    # Vertices 1 and 5 are shared by fans without a common edge.
    session.finish()

    assert session.num_non_manifold_vertices == 2
    assert session.num_isolated_vertices == 0


def test_closed_fan_gets_duplicated():
    points = TETRA_POINTS + [[1.0, 1.0, 1.0]]
    session = start(points)

    for face in TETRA_FACES:
        assert session.add_face(face) is not None

    assert session.num_non_manifold_edges == 0
    assert not any(v.boundary for v in session.mesh.vertices[:4])

    f = session.add_face([0, 1, 4])

    assert f is not None
    assert session.num_non_manifold_edges == 1
    assert registry(session) == {0: [5], 1: [6]}
    assert [int(v) for v in f] == [5, 6, 4]
    assert_manifold_edges(f)

    report = session.finish()

    assert session.num_non_manifold_vertices == 0
    assert report.splitlines() == ['mesh has topological issues:',
                                   '\t└─ 1 non-manifold edges (fixed)']


def test_existing_duplicates_are_reused():
    points = TETRA_POINTS + [[1.0, 1.0, 1.0], [-1.0, -1.0, -1.0]]
    session = start(points)

    for face in TETRA_FACES:
        session.add_face(face)

    session.add_face([0, 1, 4])
    nverts = len(session.mesh.vertices)

    # Opposite orientation of the repaired edge. Both duplicates fit.
    f = session.add_face([1, 0, 5])

    assert [int(v) for v in f] == [7, 6, 5]
    assert len(session.mesh.vertices) == nverts == 8
    assert session.num_non_manifold_edges == 2
    assert registry(session) == {0: [6], 1: [7]}

    session.finish()

    assert session.num_non_manifold_vertices == 0


def test_duplicate_of_target_is_reused():
    points = SQUARE + [[0.5, -1.0, 0.0], [0.5, 2.0, 0.0]]
    session = start(points)

    session.add_face([0, 1, 2])
    session.add_face([0, 1, 3])

    assert registry(session) == {0: [6], 1: [7]}

    # The origin's duplicate is tried first and fits.
    f = session.add_face([0, 1, 4])

    assert [int(v) for v in f] == [6, 1, 4]

    # Now (6, 1) is taken as well, only the target's duplicate fits.
    f = session.add_face([0, 1, 5])

    assert [int(v) for v in f] == [0, 7, 5]
    assert f.flags & FaceFlag.REPAIRED
    assert_manifold_edges(f)

    assert len(session.mesh.vertices) == 8
    assert registry(session) == {0: [6], 1: [7]}
    assert session.num_non_manifold_edges == 3


def test_float_index_is_rejected():
    session = start(SQUARE)

    with pytest.raises(TypeError):
        session.add_face([0, 1.7, 2])

    assert session.mesh.size == (4, 0, 0)


def test_numpy_indices_are_accepted():
    session = start(SQUARE)

    f = session.add_face(np.array([0, 1, 2]))

    assert [int(v) for v in f] == [0, 1, 2]


def test_duplicates_share_coordinates_and_flag():
    points = TETRA_POINTS + [[1.0, 1.0, 1.0]]
    session = start(points)

    for face in TETRA_FACES + [[0, 1, 4]]:
        session.add_face(face)

    for v, copies in session.duplicates.items():
        assert not v.flags & VertexFlag.DUPLICATE

        for w in copies:
            assert w.flags & VertexFlag.DUPLICATE
            np.testing.assert_array_equal(w.point, v.point)


def test_no_duplication_when_edges_are_legal():
    session = start(TETRA_POINTS)

    for face in TETRA_FACES:
        f = session.add_face(face)
        assert [int(v) for v in f] == face

    assert len(session.mesh.vertices) == 4
    assert session.duplicates == {}
    assert session.mesh.size == (4, 6, 4)
    assert session.finish() is None


def test_bowtie_is_reported_not_fixed():
    points = SQUARE + [[-1.0, -1.0, 0.0]]
    session = start(points)

    assert session.add_face([0, 1, 2]) is not None
    assert session.add_face([0, 3, 4]) is not None

    assert session.num_non_manifold_edges == 0

    report = session.finish()

    assert session.num_non_manifold_vertices == 1
    assert not session.mesh.vertices[0].manifold
    assert '1 non-manifold vertices (not fixed)' in report


def test_isolated_vertices_are_removed():
    points = SQUARE + [[-1.0, -1.0, 0.0]]
    session = start(points)

    session.add_face([0, 2, 4])
    report = session.finish()

    mesh = session.mesh

    assert session.num_isolated_vertices == 2
    assert len(mesh.vertices) == 3
    assert [v.index for v in mesh.vertices] == [0, 1, 2]
    assert indices(mesh) == [[0, 1, 2]]
    np.testing.assert_array_equal(mesh.points,
                                  np.array(points)[[0, 2, 4]])
    assert not any(v.isolated for v in mesh.vertices)
    assert '2 isolated vertices (removed)' in report


def test_report_lists_all_issues():
    points = SQUARE + [[-1.0, -1.0, 0.0]]
    session = start(points)

    session.add_face([0, 1])
    session.add_face([0, 1, 1])
    session.add_face([0, 1, 2])

    report = session.finish()

    assert report.splitlines() == [
        'mesh has topological issues:',
        '\t├─ 2 isolated vertices (removed)',
        '\t├─ 1 faces with less than 3 vertices (ignored)',
        '\t└─ 1 faces with duplicated vertices (ignored)',
    ]


def test_report_is_printed_unless_quiet(capsys):
    session = start(SQUARE, quiet=False)
    session.add_face([0, 1, 2])
    session.finish()

    out = capsys.readouterr().out

    assert 'mesh has topological issues:' in out
    assert '1 isolated vertices (removed)' in out

    session = start(SQUARE)
    session.add_face([0, 1, 2])
    session.finish()

    assert capsys.readouterr().out == ''


def test_verbose_report_lists_copies():
    points = TETRA_POINTS + [[1.0, 1.0, 1.0]]
    session = start(points, verbose=True)

    for face in TETRA_FACES + [[0, 1, 4]]:
        session.add_face(face)

    report = session.finish()

    assert 'vertex #0 copied to #5' in report
    assert 'vertex #1 copied to #6' in report


def test_begin_resets_session():
    session = start(SQUARE)
    session.add_face([0, 1])
    session.add_face([0, 0, 1])
    session.add_face([0, 1, 2])
    session.add_face([0, 1, 3])
    session.finish()

    session.begin()

    assert session.num_faces_less_three_vertices == 0
    assert session.num_faces_duplicated_vertices == 0
    assert session.num_non_manifold_edges == 0
    assert session.num_non_manifold_vertices == 0
    assert session.num_isolated_vertices == 0
    assert session.duplicates == {}
    assert session.report is None


def test_duplicates_property_is_a_copy():
    session = start(SQUARE)
    session.add_face([0, 1, 2])
    session.add_face([0, 1, 3])

    copies = session.duplicates
    copies.clear()

    assert session.duplicates != {}


def random_soup(seed, nverts=10, nfaces=80):
    rng = np.random.default_rng(seed)
    points = rng.random((nverts, 3))
    faces = [rng.integers(0, nverts, size=rng.integers(0, 6)).tolist()
             for _ in range(nfaces)]

    return points, faces


def run_soup(points, faces):
    session = start(points)
    results = [session.add_face(face) for face in faces]

    return session, results


@pytest.mark.parametrize('seed', [0, 1, 2, 3])
def test_random_soup_keeps_edges_manifold(seed):
    points, faces = random_soup(seed)
    session, results = run_soup(points, faces)

    rejected = (session.num_faces_less_three_vertices +
                session.num_faces_duplicated_vertices)
    committed = [f for f in results if f is not None]

    assert rejected + len(committed) <= len(faces)
    assert session.mesh.size[2] == len(committed)

    for f in committed:
        assert_manifold_edges(f)

    for v, copies in session.duplicates.items():
        for w in copies:
            np.testing.assert_array_equal(w.point, v.point)

    session.finish()

    assert not any(v.isolated for v in session.mesh.vertices)
    assert len(session.mesh.points) == len(session.mesh.vertices)


@pytest.mark.parametrize('seed', [4, 5])
def test_identical_input_gives_identical_mesh(seed):
    points, faces = random_soup(seed)

    first, _ = run_soup(points, faces)
    second, _ = run_soup(points, faces)

    assert registry(first) == registry(second)

    first.finish()
    second.finish()

    assert indices(first.mesh) == indices(second.mesh)
    np.testing.assert_array_equal(first.mesh.points, second.mesh.points)
    assert first.report == second.report
    assert first.num_non_manifold_edges == second.num_non_manifold_edges
