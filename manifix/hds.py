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

""" Halfedge data structure.

A 2-manifold mesh (with or without boundary) is described by three
containers:

    - a list of :class:`Vertex` objects,
    - a list of :class:`Face` objects,
    - and a dictionary of :class:`Halfedge` objects.

These containers and the relations between their items are managed by
the :class:`Mesh` class. Vertices are tracked together with the set of
their outgoing halfedges. This makes it possible to answer boundary and
manifold queries correctly even while a vertex is temporarily attached
to more than one fan of faces, which happens while a polygon soup is
being converted by :class:`~manifix.guard.ManifoldGuard`.

Note
----
To ease debugging, this module relies on assertions which can slow down
script execution. You can disable assertions by running in optimized mode
via the "-O" command line argument.
"""

import operator

from pathlib import Path
from time import time

import numpy as np

import manifix.obj as obj
import manifix.flags as flags
import manifix.guard as guard


class Mesh:
    """ Mesh kernel.

    The combinatorics of a mesh can be built by reading from a file, by
    converting a sequence of vertex coordinates and a sequence of face
    definitions to its halfedge representation, or incrementally via
    :meth:`add_vertex` and :meth:`add_face`.

    Parameters
    ----------
    points : array_like, optional
        Vertex coordinates. Copied to a :obj:`~numpy.ndarray` of floats.
    faces : array_like, optional
        Face definitions, 0-based vertex indexing.
    name : str, optional
        Name tag.
    repair : bool, optional
        Route all faces through a :class:`~manifix.guard.ManifoldGuard`
        session instead of rejecting non-manifold input.
    quiet : bool, optional
        Suppress console output.

    Raises
    ------
    NonManifoldError
        When trying to initialize a mesh from non-manifold data without
        requesting repair.
    ValueError
        If faces are given without points or, without repair, if a face
        is degenerate.
    """

    def __init__(self, points=None, faces=None, *, name=None, repair=False,
                 quiet=False):
        """ Initialize from vertex and face lists.
        """
        CWHITERED = '\33[41m'               # white on red background
        CEND = '\33[0m'

        if points is None and faces:
            msg = "face definitions require 'points' argument != None"
            raise ValueError(msg)

        # The coordinate array is grown in place when vertices are added,
        # so the mesh has to own its data buffer.
        if points is not None and len(points):
            self._points = np.array(points, dtype=float)
            self._verts = [Vertex(i, parent=self)
                           for i in range(len(self._points))]
        else:
            self._points = None
            self._verts = []

        # Sets of outgoing halfedges. Used to detect and handle vertices
        # that are attached to more than one fan of faces.
        self._vhout = {v: set() for v in self._verts}

        # A dictionary that maps pairs of vertices to halfedges. Useful
        # and efficient for checking if vertices are adjacent.
        self._halfs = dict()
        self._faces = []

        self.name = name

        if repair:
            session = guard.ManifoldGuard(self, quiet=quiet)
            session.begin()

            for face in faces or ():
                session.add_face(face)

            # Isolated vertices get removed here, vertex indices may
            # change as a result.
            session.finish()
            return

        for face in faces or ():
            self.add_face(face)

        # Typically one does not expect isolated vertices in a mesh.
        if not quiet and any(v.isolated for v in self._verts):
            print(f'{CWHITERED}there are isolated vertices{CEND}')

        for v in self._verts:
            if not v.manifold:
                raise NonManifoldError(f'vertex #{v._idx} is non-manifold')

    def __iter__(self):
        """ Face iterator.

        Yields
        ------
        Face
            Next face in insertion order traversal.
        """
        return iter(self._faces)

    @property
    def points(self):
        """ Vertex coordinate array.

        Direct read and write access to vertex coordinates. Changing the
        size of the coordinate array is likely to break the halfedge data
        structure.

        :type: ~numpy.ndarray or None

        Note
        ----
        The vertex coordinate array contains coordinate entries of deleted
        vertices. Calling :meth:`clean` removes those entries.
        """
        return self._points

    @property
    def vertices(self):
        """ Vertex list.

        Read access to the vertex list. This list should not be modified
        directly.

        :type: list[Vertex]

        Note
        ----
        The vertex list may contain deleted vertices. Call
        :meth:`~Mesh.clean` to remove deleted vertices from the vertex
        container.
        """
        return self._verts

    @property
    def faces(self):
        """ Face list.

        Read access to the face list. This list should not be modified
        directly.

        :type: list[Face]

        Face definitions as plain index lists are generated with

        >>> faces = [[int(v) for v in f] for f in mesh]
        """
        return self._faces

    @property
    def halfedges(self):
        """ Halfedge dictionary.

        Dictionary that maps pairs of :class:`Vertex` objects to
        :class:`Halfedge` instances.

        :type: dict
        """
        return self._halfs

    @property
    def size(self):
        """ Mesh size.

        Mesh size **not** accounting for deleted vertices. The
        attribute value :math:`(v, e, f)` holds the number of vertices,
        the number of edges, and the number of faces.

        :type: (int, int, int)
        """
        assert len(self._halfs) % 2 == 0

        return (sum(1 for _ in self._viter()),
                len(self._halfs) // 2,
                len(self._faces))

    @property
    def name(self):
        """ Name property.

        :type: str or None

        Note
        ----
        The setter strips directory prefix and type suffix.
        """
        return self._name

    @name.setter
    def name(self, value):
        self._name = value if value is None else Path(value).stem

    @classmethod
    def read(cls, filename, *, repair=True, quiet=True):
        """ Read mesh from file.

        Read vertex coordinates and face definitions from an OBJ file.
        By default the polygon soup is repaired while it is converted.

        Parameters
        ----------
        filename : str or ~pathlib.Path
            Name of an OBJ file.
        repair : bool, optional
            Use a :class:`~manifix.guard.ManifoldGuard` session.
        quiet : bool, optional
            Suppress console output.

        Raises
        ------
        NonManifoldError
            If `repair` is :obj:`False` and the file holds non-manifold
            combinatorics.

        Returns
        -------
        Mesh
            Mesh object.
        """
        CBOLD = '\33[1m'                    # bold text, white on black
        CEND = '\33[0m'

        if not quiet:
            start = time()
            print(f'reading {CBOLD}{Path(filename).name}{CEND}', end=' ...')

        points, faces = obj.read(filename)

        if not quiet:
            print(f' done ({time()-start:.3f} sec, {repair=})')
            print(f'\t├─ {0 if points is None else len(points)}'
                  ' vertices')
            print(f'\t└─ {len(faces)} faces')

        return cls(points, faces, name=filename, repair=repair, quiet=quiet)

    def write(self, filename, quiet=True):
        """ Write mesh to file.

        Parameters
        ----------
        filename : str or ~pathlib.Path
            Name of an OBJ file.
        quiet : bool, optional
            Suppress console output.

        Note
        ----
        Coordinates of deleted vertices are written as well unless
        :meth:`clean` was called first.
        """
        CBOLD = '\33[1m'                    # bold text, white on black
        CEND = '\33[0m'

        faces = ([int(v) for v in f] for f in self)

        if not quiet:
            start = time()
            print(f'writing {CBOLD}{Path(filename).name}{CEND}', end=' ...')

        obj.write(filename, self._points, faces)

        if not quiet:
            print(f' done ({time()-start:.3} sec)')

    def add_vertex(self, point, *args):
        """ Create and add new vertex.

        The first point added to a mesh determines the dimensionality
        of all mesh vertices.

        Parameters
        ----------
        point : array_like or float
            Vertex coordinates.
        *args
            Variable number of scalars.

        Raises
        ------
        ValueError
            If `point` has the wrong shape.

        Returns
        -------
        Vertex
            The newly created :class:`Vertex` instance.
        """
        point = [point, *args] if len(args) else point
        self._points = obj._array_append(self._points, point)

        v = Vertex(len(self._verts), parent=self)

        self._verts.append(v)
        self._vhout[v] = set()

        return v

    def add_face(self, face, *args):
        """ Create and add new face.

        Vertex identifiers used in the definition of a face have to
        refer to existing vertices of the mesh. All checks are performed
        before the mesh is modified, a face that is refused leaves the
        mesh unchanged.

        Parameters
        ----------
        face : list[int] or list[Vertex]
            Combinatorial face definition.
        *args
            Variable number of :class:`Vertex` or :class:`int` arguments.

        Raises
        ------
        NonManifoldError
            If one of the face's halfedges already has a face.
        IndexError
            If the given vertex indices are out of bounds.
        ValueError
            If the given arguments do not define a valid face.

        Returns
        -------
        Face
            The newly created :class:`Face` instance.
        """
        face = [face, *args] if len(args) else face
        face = [self._vertex(i) for i in face]
        n = len(face)

        # Check for degeneracies: All vertices have to be topologically
        # different. If this test is passed there still need to be at
        # least three vertices. Duplicate coordinates are not a problem.
        if len(set(face)) != n:
            raise ValueError('face contains duplicate vertices')

        if n < 3:
            raise ValueError('face has less than three vertices')

        if any(v._deleted for v in face):
            raise ValueError('face references deleted vertices')

        # Dry run. A halfedge that already borders a face cannot be used
        # a second time.
        for k in range(n):
            v = face[k]
            w = face[(k + 1) % n]
            h = self._halfs.get((v, w), None)

            if h is not None and h._face is not None:
                msg = f'edge ({v._idx}, {w._idx}) is non-manifold'
                raise NonManifoldError(msg)

        f = Face(len(self._faces))          # new face object
        edge_loop = []                      # halfedge loop around face

        for k in range(n):
            edge_loop.append(self._add_halfedge(face[k], face[(k + 1) % n]))

        # Proceed with linking mesh items together. The _pair attribute
        # of h was set by _add_halfedge if the pair was already mapped.
        for h in edge_loop:
            h._face = f
            h._origin._halfedge = h

            # A halfedge should always have a pair. Create a boundary
            # edge if the pair does not exist yet.
            if h._pair is None:
                self._add_halfedge(h._target, h._origin)

        self._faces.append(f)
        f._halfedge = edge_loop[0]

        # Take care of next and prev halfedge pointer around the inner
        # edge loop of the face.
        for i in range(n):
            j = (i + 1) % n

            edge_loop[i]._next = edge_loop[j]
            edge_loop[j]._prev = edge_loop[i]

        # The interior edge loop of a face is complete. Link the boundary
        # halfedges around each corner, relying on the pair pointers and
        # the prev/next pointers of face loops.
        for h in edge_loop:
            ph = None                       # incoming boundary halfedge
            hh = h

            # Rotate clockwise about the origin of h until we reach the
            # boundary. Nothing to do if we circulate back to h itself.
            while True:
                if hh._pair._face is None:
                    ph = hh._pair
                    break

                hh = hh._pair._next

                if hh is h:
                    break

            hh = h

            # Rotate counterclockwise until we reach the boundary again
            # and link the two boundary halfedges.
            while ph is not None:
                hh = hh._prev._pair

                if hh is h:
                    msg = f'vertex #{h._origin._idx} is non-manifold'
                    raise NonManifoldError(msg)

                if hh._face is None:
                    hh._prev = ph
                    ph._next = hh

                    break

        return f

    def find_halfedge(self, v, w):
        """ Halfedge lookup.

        Parameters
        ----------
        v : Vertex or int
            Origin vertex.
        w : Vertex or int
            Target vertex.

        Raises
        ------
        IndexError
            If a vertex index is out of bounds.

        Returns
        -------
        Halfedge or None
            The halfedge pointing from `v` to `w` if the two vertices
            are adjacent, :obj:`None` otherwise.
        """
        return self._halfs.get((self._vertex(v), self._vertex(w)), None)

    def delete_vertex(self, vertex):
        """ Delete isolated vertex.

        The vertex is marked as deleted. It is removed from the vertex
        container when calling :meth:`clean`.

        Parameters
        ----------
        vertex : Vertex or int
            Vertex identifier.

        Raises
        ------
        IndexError
            If the vertex index is out of bounds.
        ValueError
            If the vertex is still attached to any edge.
        """
        v = self._vertex(vertex)
        assert not v._deleted

        if not v.isolated:
            raise ValueError(f'vertex #{v._idx} is not isolated')

        v._deleted = True

    def clean(self):
        """ Garbage collection.

        Removes all deleted vertices from the vertex container and
        compacts the coordinate array. Previously obtained vertex indices
        may become invalid.
        """
        assert self._points is None or len(self._points) == len(self._verts)

        # Invalidate all attributes of vertices to be removed from the mesh.
        # This should prevent accidental access by triggering assertions and
        # raising exceptions by references outside the mesh instance.
        for v in self._verts:
            if v._deleted:
                assert not self._vhout[v]

                del self._vhout[v]
                v._invalidate()

        vidx = [i for i, v in enumerate(self._verts) if not v._deleted]

        # Move the coordinates of live vertices to the front of the point
        # array, preserving their relative order. Then compress the array
        # by in-place resizing.
        if vidx:
            shape = list(self._points.shape)
            shape[0] = len(vidx)

            self._points[:len(vidx), ...] = self._points[vidx, ...]
            self._points.resize(shape, refcheck=False)
        else:
            self._points = None

        self._verts[:] = (v for v in self._verts if not v._deleted)

        for i, v in enumerate(self._verts):
            v._idx = i

    def _vertex(self, i):
        """ Vertex lookup by index or :class:`Vertex` instance.
        """
        i = operator.index(i)

        if not 0 <= i < len(self._verts):
            raise IndexError(f'vertex index {i} out of range')

        return self._verts[i]

    def _add_halfedge(self, v, w):
        """ Create and add new halfedge.

        Generate new halfedge and take care of its :attr:`~Halfedge.origin`,
        :attr:`~Halfedge.target`, and :attr:`~Halfedge.pair` attributes. If
        the halfedge is already mapped as a boundary halfedge, the existing
        instance is returned.

        Parameters
        ----------
        v : Vertex
            Origin vertex of the halfedge.
        w : Vertex
            Target vertex of the halfedge

        Raises
        ------
        NonManifoldError
            If there are topological issues adding the halfedge.

        Returns
        -------
        Halfedge
            Halfedge pointing from `v` to `w`.
        """
        assert isinstance(v, Vertex) and v._mesh is self
        assert isinstance(w, Vertex) and w._mesh is self

        # This edge is topologically degenerate if the origin and target
        # vertex coincide. Not to be confused with geometrically degenerate
        # if the vertex locations coincide.
        if v is w:
            msg = f'topologically degenerate edge ({v._idx}, {w._idx})'
            raise NonManifoldError(msg)

        h = self._halfs.get((v, w), None)

        if h is not None:
            if h._face is not None:
                msg = f'edge ({v._idx}, {w._idx}) is non-manifold'
                raise NonManifoldError(msg)

            return h

        # The edge is not mapped yet. Create it and set its pair pointer
        # if the pair has been mapped.
        h = Halfedge(v, w)
        h._pair = self._halfs.get((w, v), None)

        if h._pair is not None:
            h._pair._pair = h

        self._halfs[v, w] = h
        self._vhout[v].add(h)

        return h

    def _viter(self):
        """ Generator expression skipping deleted vertices.
        """
        return (v for v in self._verts if not v._deleted)


class Vertex:
    """ Vertex base class.

    Vertices are considered as abstract topological entities. Vertex
    coordinates are assigned when a vertex becomes part of a mesh. Its
    coordinates can then be accessed via the :attr:`point` property.

    Parameters
    ----------
    index : int
        Vertex index.
    parent : Mesh, optional
        The parent mesh object.

    Note
    ----
    Implementations of :meth:`~object.__int__` and :meth:`~object.__index__`
    are provided. The latter makes it possible to use vertex instances as
    list indices.
    """

    def __init__(self, index, parent=None):
        self._idx = index
        self._mesh = parent
        self._halfedge = None

        self._deleted = False
        self._flags = flags.VertexFlag(0)

    def __repr__(self):
        return f'Vertex({self._idx})'

    def __index__(self):
        return self._idx

    def __int__(self):
        return self._idx

    @property
    def index(self):
        """ Vertex index.

        Position of the vertex in the list :attr:`~Mesh.vertices` of all
        mesh vertices. Same as ``int(self)``.

        :type: int
        """
        return self._idx

    @property
    def point(self):
        """ Vertex coordinates.

        View of the corresponding row of the parent mesh's coordinate
        array.

        :type: ~numpy.ndarray

        Note
        ----
        The view becomes stale when the coordinate array grows. Copy it
        before adding vertices to the mesh.
        """
        return self._mesh._points[self._idx, ...]

    @property
    def flags(self):
        """ Vertex flags.

        :type: VertexFlag
        """
        return self._flags

    @flags.setter
    def flags(self, value):
        self._flags = value

    @property
    def halfedge(self):
        """ Outward pointing halfedge.

        A halfedge that starts at the vertex or :obj:`None` for isolated
        vertices.

        :type: Halfedge
        """
        assert not self._deleted
        return self._halfedge

    @property
    def deleted(self):
        """ Internal state.

        :type: bool
        """
        return self._deleted

    @property
    def boundary(self):
        """ Topological state.

        A vertex is a boundary vertex if it can receive another incident
        face: it is isolated or one of its outgoing halfedges has no face.
        All fans attached to the vertex are taken into account.

        :type: bool
        """
        assert not self._deleted

        halfs = self._mesh._vhout[self]

        return not halfs or any(h._face is None for h in halfs)

    @property
    def isolated(self):
        """ Topological state.

        A vertex is isolated if its :attr:`~Vertex.halfedge` attribute
        holds a :obj:`None` value, i.e., it is not linked to any edge.

        :type: bool
        """
        assert not self._deleted

        h = self._halfedge
        vhout = self._mesh._vhout[self]

        assert h is None or h in vhout
        assert h is not None or not vhout

        return h is None

    @property
    def manifold(self):
        """ Topological state.

        A vertex is manifold if its incident faces form a single fan,
        either open (boundary vertex) or closed (interior vertex).
        Isolated vertices are considered manifold.

        :type: bool
        """
        assert not self._deleted

        # We cannot rely on self.halfedge since this allows us only to
        # visit one fan of faces attached to the vertex. The point is to
        # find out if there is more than one such fan.
        halfs = self._mesh._vhout[self]

        if not halfs:
            return True

        # There can never be more than two None faces in a single fan
        # (one outgoing and one incoming boundary halfedge).
        faces = [h._face for h in halfs] + [h._pair._face for h in halfs]
        count = faces.count(None)

        if count == 0 or count == 2:
            fmap = {h._face: h._pair._face for h in halfs}
            loop = [faces[0]] if count == 0 else [None]

            while fmap:
                # A KeyError indicates a corrupt halfedge structure.
                loop.append(fmap.pop(loop[-1]))

                if loop[0] is loop[-1]:
                    break

            # The fan is a single one if the loop has closed while fmap
            # was exhausted.
            if loop[0] is loop[-1] and not fmap:
                return True

        return False

    def _invalidate(self):
        """ Reset all combinatorial attributes.
        """
        assert self._deleted

        self._idx = None
        self._mesh = None
        self._halfedge = None


class Halfedge:
    """ Halfedge base class.

    Halfedges store references to their vertices, the successor, predecessor,
    and twin halfedge as well as the incident face -- the face to its left.

    Parameters
    ----------
    origin : Vertex
        Origin vertex of the halfedge.
    target : Vertex
        Target vertex of the halfedge.
    """

    def __init__(self, origin, target):
        self._origin = origin
        self._target = target

        self._next = None
        self._prev = None
        self._pair = None
        self._face = None

    def __repr__(self):
        return f'Halfedge({repr(self._origin)}, {repr(self._target)})'

    @property
    def origin(self):
        """ Halfedge origin vertex.

        :type: Vertex
        """
        return self._origin

    @property
    def target(self):
        """ Halfedge target vertex.

        :type: Vertex
        """
        return self._target

    @property
    def next(self):
        """ Successor halfedge.

        Next halfedge of the face loop. For boundary halfedges the next
        halfedge along the boundary, :obj:`None` until the boundary is
        linked at the target vertex.

        :type: Halfedge or None
        """
        return self._next

    @property
    def prev(self):
        """ Predecessor halfedge.

        :type: Halfedge or None
        """
        return self._prev

    @property
    def pair(self):
        """ Opposite halfedge.

        :type: Halfedge
        """
        return self._pair

    @property
    def face(self):
        """ Incident face.

        The face to left of the halfedge or :py:obj:`None` in case of
        a boundary halfedge.

        :type: Face
        """
        return self._face

    @property
    def boundary(self):
        """ Topological state.

        Only boundary halfedges, those without a :attr:`face`, can be
        used by a new face.

        :type: bool
        """
        return self._face is None


class Face:
    """ Face base class.

    A face is defined by the closed loop of halfedges starting at its
    :attr:`halfedge` attribute. Faces are never removed from a mesh.

    Parameters
    ----------
    index : int
        Face index.
    """

    def __init__(self, index):
        self._idx = index
        self._halfedge = None
        self._flags = flags.FaceFlag(0)

    def __repr__(self):
        return f'Face({self._idx})'

    def __len__(self):
        """ Face valence.

        Returns
        -------
        int
            Number of vertices.
        """
        return sum(1 for _ in self._hiter())

    def __iter__(self):
        """ Vertex iterator.

        Yields
        ------
        Vertex
            Next vertex in counter-clockwise traversal, starting with
            ``self.halfedge.origin``.
        """
        for h in self._hiter():
            yield h._origin

    @property
    def index(self):
        """ Face index.

        :type: int
        """
        return self._idx

    @property
    def flags(self):
        """ Face flags.

        :type: FaceFlag
        """
        return self._flags

    @flags.setter
    def flags(self, value):
        self._flags = value

    @property
    def halfedge(self):
        """ Incident halfedge.

        :type: Halfedge
        """
        return self._halfedge

    @property
    def boundary(self):
        """ Topological state.

        A face is a boundary face if one of its edges is a boundary edge.

        :type: bool
        """
        return any(h._pair._face is None for h in self._hiter())

    def _hiter(self):
        h = self._halfedge

        while True:
            yield h
            h = h._next

            if h is self._halfedge:
                return


class NonManifoldError(Exception):
    """ Manifold exception base class.

    Raised if an operation results in a topological configuration that
    violates the manifold condition.
    """

    pass
