# Copyright 2024, m3shware
#
# Permission is hereby granted, free of charge, to any person obtaining a
# copy of this software and associated documentation files (the "Software"),
# to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense,
# and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS
# IN THE SOFTWARE.

""" Manifold repair of polygon soups.

A :class:`ManifoldGuard` wraps a :class:`~manifix.hds.Mesh` and converts a
stream of vertices and face definitions into a valid halfedge mesh. Faces
are processed one at a time and never revisited:

    - faces with less than three vertices or repeated vertices are
      skipped,
    - edges that would become non-manifold are repaired by replacing
      face vertices with duplicates (same coordinates, independent
      neighborhood),
    - isolated vertices are removed when the session ends.

A typical session looks like this:

.. code-block:: python
   :linenos:

    mesh = Mesh()
    session = ManifoldGuard(mesh)
    session.begin()

    for p in points:
        session.add_vertex(p)

    for face in faces:
        session.add_face(face)

    session.finish()

Note
----
Vertex duplication is a local decision based on the faces committed so
far. Vertices that end up non-manifold without any single edge being
non-manifold (two fans touching in one vertex) are counted by
:meth:`~ManifoldGuard.finish` but not fixed.
"""

import operator

import numpy as np

import manifix.hds as hds
import manifix.flags as flags


class ManifoldGuard:
    """ Incremental manifold repair session.

    Parameters
    ----------
    mesh : Mesh
        The mesh that receives vertices and faces.
    quiet : bool, optional
        Do not print the diagnostic report.
    verbose : bool, optional
        List the duplicates of each vertex in the diagnostic report.

    Note
    ----
    A session is not reentrant. Calls to :meth:`add_face` have to be
    strictly sequential.
    """

    def __init__(self, mesh, *, quiet=False, verbose=False):
        self._mesh = mesh
        self._quiet = quiet
        self._verbose = verbose

        # Per face buffers, reused across calls. The input buffer holds
        # the face vertices as given, the working buffer receives the
        # duplicates selected during edge resolution.
        self._input = []
        self._work = []

        self.begin()

    @property
    def mesh(self):
        """ The mesh being built.

        :type: Mesh
        """
        return self._mesh

    @property
    def duplicates(self):
        """ Duplicate registry.

        Maps original vertices to the list of their duplicates in order
        of creation. A copy of the internal registry is returned.

        :type: dict[Vertex, list[Vertex]]
        """
        return {v: list(copies) for v, copies in self._copies.items()}

    @property
    def num_faces_less_three_vertices(self):
        """ Number of faces skipped for having less than three vertices.

        :type: int
        """
        return self._num_faces_less_three_vertices

    @property
    def num_faces_duplicated_vertices(self):
        """ Number of faces skipped for referencing a vertex twice.

        :type: int
        """
        return self._num_faces_duplicated_vertices

    @property
    def num_non_manifold_edges(self):
        """ Number of non-manifold edges fixed by vertex duplication.

        :type: int
        """
        return self._num_non_manifold_edges

    @property
    def num_non_manifold_vertices(self):
        """ Number of non-manifold vertices found by :meth:`finish`.

        :type: int
        """
        return self._num_non_manifold_vertices

    @property
    def num_isolated_vertices(self):
        """ Number of isolated vertices removed by :meth:`finish`.

        :type: int
        """
        return self._num_isolated_vertices

    @property
    def report(self):
        """ Diagnostic report of the last :meth:`finish` call.

        :type: str or None
        """
        return self._report

    def begin(self):
        """ Start a new session.

        Resets all counters and clears the duplicate registry.
        """
        self._num_faces_less_three_vertices = 0
        self._num_faces_duplicated_vertices = 0
        self._num_non_manifold_edges = 0
        self._num_non_manifold_vertices = 0
        self._num_isolated_vertices = 0

        self._input.clear()
        self._work.clear()

        self._copies = dict()
        self._report = None

    def add_vertex(self, point, *args):
        """ Add vertex to the mesh.

        See :meth:`~manifix.hds.Mesh.add_vertex`.
        """
        return self._mesh.add_vertex(point, *args)

    def add_face(self, face):
        """ Add face to the mesh.

        The face is skipped if it is degenerate. Otherwise each of its
        edges is checked in turn and, if necessary, face vertices are
        replaced by duplicates before the face is inserted.

        Parameters
        ----------
        face : list[int] or list[Vertex]
            Combinatorial face definition.

        Raises
        ------
        IndexError
            If a vertex index is out of range.
        TypeError
            If a face entry is not an integer or a :class:`Vertex`.

        Returns
        -------
        Face or None
            The new face, :obj:`None` if the face was skipped or could
            not be inserted.
        """
        face = [operator.index(i) for i in face]
        n = len(face)

        if n < 3:
            self._num_faces_less_three_vertices += 1
            return None

        if len(set(face)) != n:
            self._num_faces_duplicated_vertices += 1
            return None

        verts = self._mesh.vertices

        for i in face:
            if not 0 <= i < len(verts):
                raise IndexError(f'vertex index {i} out of range')

        self._input[:] = (verts[i] for i in face)
        self._work[:] = self._input

        for s in range(n):
            self._resolve(s, (s + 1) % n)

        # The mesh has the final say. There is nothing left to repair if
        # the face is refused at this point.
        try:
            f = self._mesh.add_face(self._work)
        except (hds.NonManifoldError, ValueError):
            return None

        if self._work != self._input:
            f.flags |= flags.FaceFlag.REPAIRED

        return f

    def finish(self):
        """ End the session.

        Removes isolated vertices, compacts the mesh, and counts vertices
        that are still non-manifold. A report is printed unless the guard
        was created with ``quiet=True``.

        Returns
        -------
        str or None
            The diagnostic report, :obj:`None` if no issues were found.
        """
        CWHITERED = '\33[41m'               # white on red background
        CEND = '\33[0m'

        mesh = self._mesh

        for v in mesh.vertices:
            if not v.deleted and v.isolated:
                mesh.delete_vertex(v)
                self._num_isolated_vertices += 1

        mesh.clean()

        for v in mesh.vertices:
            if not v.manifold:
                self._num_non_manifold_vertices += 1

        issues = []

        if self._num_isolated_vertices > 0:
            issues.append(f'{self._num_isolated_vertices} '
                          'isolated vertices (removed)')

        if self._num_faces_less_three_vertices > 0:
            issues.append(f'{self._num_faces_less_three_vertices} '
                          'faces with less than 3 vertices (ignored)')

        if self._num_faces_duplicated_vertices > 0:
            issues.append(f'{self._num_faces_duplicated_vertices} '
                          'faces with duplicated vertices (ignored)')

        if self._num_non_manifold_edges > 0:
            issues.append(f'{self._num_non_manifold_edges} '
                          'non-manifold edges (fixed)')

        if self._num_non_manifold_vertices > 0:
            issues.append(f'{self._num_non_manifold_vertices} '
                          'non-manifold vertices (not fixed)')

        if not issues:
            self._report = None
            return None

        if self._verbose:
            for v, copies in self._copies.items():
                # Originals and duplicates removed as isolated vertices
                # no longer have an index.
                copies = [w for w in copies if not w.deleted]

                if not v.deleted and copies:
                    issues.append(f'vertex #{v.index} copied to ' +
                                  ' '.join(f'#{w.index}' for w in copies))

        lines = [f'\t├─ {issue}' for issue in issues[:-1]]
        lines.append(f'\t└─ {issues[-1]}')

        header = 'mesh has topological issues:'
        self._report = '\n'.join([header, *lines])

        if not self._quiet:
            print(f'{CWHITERED}{header}{CEND}')

            for line in lines:
                print(line)

        return self._report

    def _legal(self, v, w):
        """ Halfedge legality test.

        A halfedge from `v` to `w` can be added if it does not already
        border a face and both vertices have an open slot.
        """
        h = self._mesh.find_halfedge(v, w)

        if h is not None and not h.boundary:
            return False

        return v.boundary and w.boundary

    def _resolve(self, s, t):
        """ Find or duplicate edge.

        Make the edge between positions `s` and `t` of the working face
        legal. Existing duplicates are tried before new ones are created,
        first for `s`, then for `t`, then for both. The working buffer is
        modified in place.

        Parameters
        ----------
        s : int
            Position of the edge's origin in the face.
        t : int
            Position of the edge's target in the face.
        """
        work = self._work

        if self._legal(work[s], work[t]):
            return

        self._num_non_manifold_edges += 1

        for v in self._copies.get(work[s], ()):
            if self._legal(v, work[t]):
                work[s] = v
                return

        for w in self._copies.get(work[t], ()):
            if self._legal(work[s], w):
                work[t] = w
                return

        for v in self._copies.get(work[s], ()):
            for w in self._copies.get(work[t], ()):
                if self._legal(v, w):
                    work[s] = v
                    work[t] = w
                    return

        # No existing duplicate fits. Duplicate whichever input vertex
        # has a closed fan, origin first.
        vs = self._input[s]
        vt = self._input[t]

        if not vs.boundary:
            work[s] = self._duplicate(vs)

            if self._legal(work[s], work[t]):
                return

        if not vt.boundary:
            work[t] = self._duplicate(vt)

            if self._legal(work[s], work[t]):
                return

        # Last resort, no further check. Whatever remains non-manifold is
        # either refused by the mesh or reported by finish().
        if work[s] is vs:
            work[s] = self._duplicate(vs)

        if work[t] is vt:
            work[t] = self._duplicate(vt)

    def _duplicate(self, v):
        """ Copy vertex `v` and register the copy.
        """
        # Copy the coordinates, growing the coordinate array may move its
        # data buffer.
        w = self._mesh.add_vertex(np.array(v.point))
        w.flags |= flags.VertexFlag.DUPLICATE

        self._copies.setdefault(v, []).append(w)

        return w
