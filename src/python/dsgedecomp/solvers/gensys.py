import numpy as np
from scipy.linalg import ordqz

REALSMALL = 1e-6


def gensys(g0, g1, c, psi, pi, div=1.01):
    """
    Python implementation of Sims (2002) gensys solver.
    g0*y(t) = g1*y(t-1) + c + psi*z(t) + pi*eta(t)

    Returns G1, C, impact, eu such that
    y(t) = G1*y(t-1) + C + impact*z(t).
    eu = [1, 1] means existence and uniqueness; eu = [-2, -2] flags
    coincident zeros in the QZ pencil.
    """
    n = g0.shape[0]
    eu = [0, 0]

    # Stable roots |beta/alpha| <= div are ordered first
    def select_stable(alpha, beta):
        return np.abs(beta) <= div * np.abs(alpha)

    a, b, alpha, beta, Q, Z = ordqz(g0, g1, sort=select_stable, output='complex')

    if np.any((np.abs(alpha) < REALSMALL) & (np.abs(beta) < REALSMALL)):
        print("Coincident zeros. Indeterminacy and/or nonexistence.")
        return None, None, None, [-2, -2]

    nunstab = int(n - np.sum(select_stable(alpha, beta)))
    nstable = n - nunstab

    # scipy returns g0 = Q a Z^H; gensys works with q = Q^H
    q = Q.conj().T
    q1, q2 = q[:nstable, :], q[nstable:, :]

    ueta, deta, veta = _svd_nonzero(q2 @ pi)
    eu[0] = int(len(deta) >= nunstab)

    ueta1, deta1, veta1 = _svd_nonzero(q1 @ pi)
    if veta1.shape[1] == 0:
        unique = True
    else:
        loose = veta1 - veta @ (veta.conj().T @ veta1)
        _, dl, _ = np.linalg.svd(loose)
        unique = int(np.sum(np.abs(dl) > REALSMALL * n)) == 0
    eu[1] = int(unique)

    # Rows of the stable block purged of the expectational errors
    etafix = ueta @ ((veta / deta).conj().T @ veta1) @ np.diag(deta1) @ ueta1.conj().T
    tmat = np.hstack([np.eye(nstable), -etafix.conj().T])

    G0 = np.vstack([tmat @ a,
                    np.hstack([np.zeros((nunstab, nstable)), np.eye(nunstab)])])
    G1 = np.vstack([tmat @ b, np.zeros((nunstab, n))])

    G0I = np.linalg.inv(G0)
    G1 = G0I @ G1

    usix = slice(nstable, n)
    C_unstab = np.linalg.solve(a[usix, usix] - b[usix, usix], q2 @ c) if nunstab > 0 \
        else np.zeros(0, dtype=complex)
    C = G0I @ np.concatenate([tmat @ q @ c, C_unstab])
    impact = G0I @ np.vstack([tmat @ q @ psi, np.zeros((nunstab, psi.shape[1]))])

    G1 = np.real(Z @ G1 @ Z.conj().T)
    C = np.real(Z @ C)
    impact = np.real(Z @ impact)

    return G1, C, impact, eu


def _svd_nonzero(M):
    """
    Thin SVD keeping only singular values above REALSMALL.
    Empty inputs give correctly shaped empty factors.
    """
    rows, cols = M.shape
    if rows == 0 or cols == 0:
        return (np.zeros((rows, 0), dtype=complex), np.zeros(0),
                np.zeros((cols, 0), dtype=complex))
    u, d, vh = np.linalg.svd(M, full_matrices=False)
    keep = d > REALSMALL
    return u[:, keep], d[keep], vh.conj().T[:, keep]
