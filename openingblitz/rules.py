"""Chess rules adapter over python-chess.

The drill never decides legality itself. Positions travel as FEN
strings; every call rebuilds a chess.Board so callers can hold plain
values and snapshot positions freely.
"""

from __future__ import annotations

from dataclasses import dataclass

import chess


@dataclass(frozen=True)
class AppliedMove:
    fen: str
    san: str
    uci: str


def position_key(fen: str) -> str:
    """FEN without the halfmove clock and fullmove number."""
    return " ".join(fen.split()[:4])


class ChessRules:
    """Move validation and game-over detection for FEN positions."""

    starting_fen = chess.STARTING_FEN

    def apply_move(
        self,
        fen: str,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> AppliedMove | None:
        """Play a from/to move, promoting to a queen unless told otherwise.

        Returns:
            The resulting position and the move's SAN, or None if illegal.
        """
        board = chess.Board(fen)
        try:
            from_sq = chess.parse_square(from_square)
            to_sq = chess.parse_square(to_square)
            promo = (
                chess.Piece.from_symbol(promotion).piece_type if promotion else None
            )
        except ValueError:
            return None

        move = chess.Move(from_sq, to_sq, promotion=promo)
        if promo is None and move not in board.legal_moves:
            move = chess.Move(from_sq, to_sq, promotion=chess.QUEEN)
        if move not in board.legal_moves:
            return None
        return self._push(board, move)

    def apply_san(self, fen: str, san: str) -> AppliedMove | None:
        """Play a move given in SAN. Returns None if it does not parse or is illegal."""
        board = chess.Board(fen)
        try:
            move = board.parse_san(san)
        except ValueError:
            return None
        return self._push(board, move)

    def is_game_over(self, fen: str) -> bool:
        return chess.Board(fen).is_game_over()

    def legal_destinations(self, fen: str, square: str) -> set[str]:
        board = chess.Board(fen)
        try:
            sq = chess.parse_square(square)
        except ValueError:
            return set()
        return {
            chess.square_name(m.to_square)
            for m in board.legal_moves
            if m.from_square == sq
        }

    def side_to_move(self, fen: str) -> str:
        return "white" if chess.Board(fen).turn == chess.WHITE else "black"

    def move_between(self, fen_before: str, fen_after: str) -> str | None:
        """Find the single legal move leading from one position to another.

        Returns:
            SAN of the move, or None if no legal move connects them.
        """
        board = chess.Board(fen_before)
        target = position_key(fen_after)
        for move in board.legal_moves:
            san = board.san(move)
            board.push(move)
            reached = position_key(board.fen())
            board.pop()
            if reached == target:
                return san
        return None

    def _push(self, board: chess.Board, move: chess.Move) -> AppliedMove:
        san = board.san(move)
        board.push(move)
        return AppliedMove(fen=board.fen(), san=san, uci=move.uci())
